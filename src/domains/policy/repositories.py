"""Policy, merchant and usage stores, with in-memory implementations."""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime

from .models import MerchantProfile, Policy


class PolicyRepository(ABC):
    @abstractmethod
    async def add(self, policy: Policy) -> None: ...

    @abstractmethod
    async def get(self, policy_id: str) -> Policy | None: ...

    @abstractmethod
    async def replace(self, policy: Policy) -> None: ...

    @abstractmethod
    async def list(self) -> list[Policy]: ...


class MerchantDirectory(ABC):
    @abstractmethod
    async def register(self, merchant: MerchantProfile) -> None: ...

    @abstractmethod
    async def get(self, merchant_id: str) -> MerchantProfile | None: ...


class UsageLedger(ABC):
    """Spent amounts per user, for daily and monthly caps."""

    @abstractmethod
    async def record(self, user_id: str, amount: float, at: datetime) -> None: ...

    @abstractmethod
    async def total(self, user_id: str, since: datetime, until: datetime) -> float:
        """Sum of amounts with ``since <= at < until``."""


class InMemoryPolicyRepository(PolicyRepository):
    def __init__(self) -> None:
        self._policies: dict[str, Policy] = {}

    async def add(self, policy: Policy) -> None:
        self._policies[policy.policy_id] = policy

    async def get(self, policy_id: str) -> Policy | None:
        return self._policies.get(policy_id)

    async def replace(self, policy: Policy) -> None:
        if policy.policy_id not in self._policies:
            raise KeyError(policy.policy_id)
        self._policies[policy.policy_id] = policy

    async def list(self) -> list[Policy]:
        return list(self._policies.values())


class InMemoryMerchantDirectory(MerchantDirectory):
    def __init__(self) -> None:
        self._merchants: dict[str, MerchantProfile] = {}

    async def register(self, merchant: MerchantProfile) -> None:
        self._merchants[merchant.merchant_id] = merchant

    async def get(self, merchant_id: str) -> MerchantProfile | None:
        return self._merchants.get(merchant_id)


class InMemoryUsageLedger(UsageLedger):
    def __init__(self) -> None:
        self._entries: dict[str, list[tuple[datetime, float]]] = defaultdict(list)

    async def record(self, user_id: str, amount: float, at: datetime) -> None:
        self._entries[user_id].append((at, amount))

    async def total(self, user_id: str, since: datetime, until: datetime) -> float:
        return sum(amount for at, amount in self._entries.get(user_id, []) if since <= at < until)
