"""
Тесты ретраера транзакций
"""
import pytest

from shared.repositories import ConcurrentModificationError
from shared.transaction_retry import TransactionConflict, TransactionRetrier


class TestTransactionRetrier:

    @pytest.mark.asyncio
    async def test_returns_after_conflicts(self):
        calls = []

        async def body():
            calls.append(1)
            if len(calls) < 3:
                raise ConcurrentModificationError("busy")
            return "done"

        assert await TransactionRetrier(max_retries=5, retry_delay=0).run(body) == "done"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_bounded(self):
        calls = []

        async def body():
            calls.append(1)
            raise ConcurrentModificationError("busy")

        with pytest.raises(TransactionConflict) as exc_info:
            await TransactionRetrier(max_retries=5, retry_delay=0).run(body)

        assert len(calls) == 5
        assert exc_info.value.attempts == 5
        assert isinstance(exc_info.value.last_error, ConcurrentModificationError)

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        calls = []

        async def body():
            calls.append(1)
            raise LookupError("gone")

        with pytest.raises(LookupError):
            await TransactionRetrier(retry_delay=0).run(body)

        assert len(calls) == 1

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            TransactionRetrier(max_retries=0)
