"""
Sample domain model: teams and their members.

Member.team is the owning side of the relationship (column ``team_id``);
Team.members is its read-only mirror.
"""

from typing import Optional

from relquery.modeling import Column, Entity, Id, ManyToOne, OneToMany


class Team(Entity):
    __tablename__ = "team"

    id = Id()
    name = Column(str)
    members = OneToMany("Member", mapped_by="team")

    def __init__(self, name: Optional[str] = None):
        super().__init__(name=name)


class Member(Entity):
    __tablename__ = "member"

    id = Id(column="member_id")
    username = Column(str)
    age = Column(int, default=0)
    team = ManyToOne("Team", join_column="team_id")

    def __init__(self, username: Optional[str] = None, age: int = 0, team: Optional[Team] = None):
        super().__init__(username=username, age=age, team=team)

    def change_team(self, team: Team) -> None:
        """Move this member to another team; both teams' member lists follow."""
        self.team = team
