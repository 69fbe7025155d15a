"""
In-memory реализации репозиториев (тесты, локальная отладка)

Транзакция работает на копиях документов и при коммите сверяет версии
всех прочитанных аккаунтов, как это делает хранилище с оптимистичной
блокировкой.
"""
import asyncio
import copy
from datetime import datetime
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import uuid4

from shared.repositories import (
    AccountRepository,
    AccountTransaction,
    ConcurrentModificationError,
    NotificationRepository,
)
from shared.schemas import AccountSnapshot, NotificationCreate, ReferralRecord


class InMemoryAccountTransaction(AccountTransaction):

    def __init__(self, store: "InMemoryAccountRepository"):
        self.store = store
        self.read_versions: dict[str, int] = {}
        self.working: dict[str, dict] = {}
        self.dirty: set[str] = set()

    async def _load(self, account_id: str) -> Optional[dict]:
        # Отдаём управление циклу, чтобы параллельные транзакции чередовались
        await asyncio.sleep(0)

        if account_id in self.working:
            return self.working[account_id]

        document = self.store.accounts.get(account_id)
        if document is None:
            return None

        self.read_versions[account_id] = document["version"]
        self.working[account_id] = copy.deepcopy(document)
        return self.working[account_id]

    async def _require(self, account_id: str) -> dict:
        document = await self._load(account_id)
        if document is None:
            raise LookupError(f"Account {account_id} disappeared inside transaction")
        self.dirty.add(account_id)
        return document

    async def get_account(self, account_id: str) -> Optional[AccountSnapshot]:
        document = await self._load(account_id)
        if document is None:
            return None
        return AccountSnapshot(**document)

    async def find_by_referral_code(self, referral_code: str) -> list[AccountSnapshot]:
        matches = sorted(
            account_id for account_id, document in self.store.accounts.items()
            if document.get("referral_code") == referral_code
        )
        snapshots = []
        for account_id in matches:
            document = await self._load(account_id)
            if document is not None:
                snapshots.append(AccountSnapshot(**document))
        return snapshots

    async def mark_qualified(self, account_id: str) -> None:
        document = await self._require(account_id)
        document["has_completed_qualifying_action"] = True

    async def credit(self, account_id: str, amount: int) -> None:
        document = await self._require(account_id)
        document["balance"] += amount

    async def promote_referral(self, referrer_id: str, record: ReferralRecord) -> bool:
        document = await self._require(referrer_id)
        entry = record.model_dump()

        pending = document["pending_referrals"]
        was_pending = any(
            item["referred_account_id"] == record.referred_account_id for item in pending
        )
        document["pending_referrals"] = [
            item for item in pending
            if item["referred_account_id"] != record.referred_account_id
        ]

        successful = document["successful_referrals"]
        if not any(item["referred_account_id"] == record.referred_account_id for item in successful):
            successful.append(entry)

        return was_pending


class InMemoryAccountRepository(AccountRepository):
    """Аккаунты в словаре: {account_id: document}"""

    def __init__(self):
        self.accounts: dict[str, dict] = {}
        self.commits = 0
        self._commit_lock = asyncio.Lock()
        self._forced_conflicts = 0

    def add_account(
        self,
        account_id: str,
        full_name: str = "",
        referral_code: Optional[str] = None,
        referred_by_code: Optional[str] = None,
        balance: int = 0,
        has_completed_qualifying_action: bool = False,
        pending_referrals: Optional[list[ReferralRecord]] = None,
        email: Optional[str] = None,
    ) -> dict:
        self.accounts[account_id] = {
            "id": account_id,
            "full_name": full_name,
            "email": email,
            "referral_code": referral_code,
            "referred_by_code": referred_by_code,
            "has_completed_qualifying_action": has_completed_qualifying_action,
            "balance": balance,
            "pending_referrals": [r.model_dump() for r in (pending_referrals or [])],
            "successful_referrals": [],
            "version": 1,
        }
        return self.accounts[account_id]

    def get(self, account_id: str) -> dict:
        return copy.deepcopy(self.accounts[account_id])

    def force_conflicts(self, count: int) -> None:
        """Следующие `count` коммитов завершатся конфликтом"""
        self._forced_conflicts = count

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryAccountTransaction]:
        txn = InMemoryAccountTransaction(self)
        yield txn

        async with self._commit_lock:
            if self._forced_conflicts > 0:
                self._forced_conflicts -= 1
                raise ConcurrentModificationError("Injected conflict")

            for account_id, version in txn.read_versions.items():
                current = self.accounts.get(account_id)
                if current is None or current["version"] != version:
                    raise ConcurrentModificationError(
                        f"Account {account_id} changed since it was read"
                    )

            for account_id in txn.dirty:
                document = txn.working[account_id]
                document["version"] += 1
                self.accounts[account_id] = document

            self.commits += 1


class InMemoryNotificationRepository(NotificationRepository):

    def __init__(self):
        self.notifications: list[dict] = []

    async def add(self, notification: NotificationCreate) -> str:
        notification_id = uuid4().hex
        self.notifications.append({
            "id": notification_id,
            **notification.model_dump(),
            "is_read": False,
            "timestamp": datetime.now(),
        })
        return notification_id
