"""
The identity of the user who requests an API operation under review.

The identity is provided by the apiservers in the admission review requests
(``request.userInfo``), as authenticated by them. The webhook trusts it as is.
"""
import dataclasses
from typing import FrozenSet

from vmgate.structs import reviews


@dataclasses.dataclass(frozen=True)
class Identity:
    username: str
    groups: FrozenSet[str] = frozenset()
    uid: str = ''

    @classmethod
    def from_userinfo(cls, userinfo: reviews.UserInfo) -> "Identity":
        return cls(
            username=userinfo.get('username') or '',
            groups=frozenset(userinfo.get('groups') or []),
            uid=userinfo.get('uid') or '',
        )
