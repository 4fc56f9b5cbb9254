from dataclasses import dataclass

from cardledger.config import settings


@dataclass(frozen=True, slots=True)
class UserContext:
    """
    The user on whose behalf a ledger operation runs.

    Collections are scoped to `user_id`; a collection owned by someone
    else is indistinguishable from a missing one.
    """

    user_id: str

    @classmethod
    def default(cls) -> "UserContext":
        """Context for single-user deployments."""
        return cls(user_id=settings.default_user_id)
