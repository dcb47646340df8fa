"""
SQLite 어댑터 테스트

SQLiteAdapter 및 관련 함수 테스트.
"""

import asyncio
import sqlite3
from pathlib import Path

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import (
    SQLiteAdapter,
    create_connection,
    is_busy_error,
)


class TestIsBusyError:
    """is_busy_error 테스트"""

    def test_locked(self) -> None:
        assert is_busy_error(sqlite3.OperationalError("database is locked"))

    def test_busy(self) -> None:
        assert is_busy_error(sqlite3.OperationalError("database is busy"))

    def test_other_operational_error(self) -> None:
        assert not is_busy_error(sqlite3.OperationalError("no such table: foo"))

    def test_other_exception_type(self) -> None:
        assert not is_busy_error(ValueError("database is locked"))


class TestCreateConnection:
    """create_connection 테스트"""

    @pytest.mark.asyncio
    async def test_pragmas(self, tmp_path: Path) -> None:
        """WAL 모드, busy_timeout, foreign_keys"""
        conn = await create_connection(tmp_path / "test.db", busy_timeout_ms=1234)

        cursor = await conn.execute("PRAGMA journal_mode")
        assert (await cursor.fetchone())[0].upper() == "WAL"

        cursor = await conn.execute("PRAGMA busy_timeout")
        assert (await cursor.fetchone())[0] == 1234

        cursor = await conn.execute("PRAGMA foreign_keys")
        assert (await cursor.fetchone())[0] == 1

        await conn.close()

    @pytest.mark.asyncio
    async def test_autocommit_mode(self, tmp_path: Path) -> None:
        """암묵적 트랜잭션 없음"""
        conn = await create_connection(tmp_path / "test.db")

        assert conn.isolation_level is None
        await conn.execute("CREATE TABLE t (id INTEGER)")
        await conn.execute("INSERT INTO t VALUES (1)")
        assert conn.in_transaction is False

        await conn.close()

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "subdir" / "test.db"

        conn = await create_connection(db_path)

        assert db_path.parent.exists()
        await conn.close()


class TestSQLiteAdapter:
    """SQLiteAdapter 테스트"""

    @pytest_asyncio.fixture
    async def adapter(self, tmp_path: Path) -> SQLiteAdapter:
        """어댑터 픽스처"""
        adapter = SQLiteAdapter(tmp_path / "test.db")
        await adapter.connect()
        await adapter.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, value TEXT)")
        yield adapter
        await adapter.close()

    @pytest.mark.asyncio
    async def test_connect_and_close(self, tmp_path: Path) -> None:
        """연결 및 종료"""
        adapter = SQLiteAdapter(tmp_path / "test.db")

        assert adapter.is_connected is False

        await adapter.connect()
        assert adapter.is_connected is True

        await adapter.close()
        assert adapter.is_connected is False

    @pytest.mark.asyncio
    async def test_not_connected(self, tmp_path: Path) -> None:
        adapter = SQLiteAdapter(tmp_path / "test.db")

        with pytest.raises(RuntimeError, match="Not connected"):
            await adapter.fetchone("SELECT 1")

    @pytest.mark.asyncio
    async def test_execute_and_fetch(self, adapter: SQLiteAdapter) -> None:
        """SQL 실행 (autocommit)"""
        for value in ("A", "B", "C"):
            await adapter.execute("INSERT INTO items (value) VALUES (?)", (value,))

        row = await adapter.fetchone("SELECT value FROM items WHERE id = 1")
        rows = await adapter.fetchall("SELECT value FROM items ORDER BY value")

        assert row[0] == "A"
        assert isinstance(rows, list)
        assert [r[0] for r in rows] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_transaction_commit(self, adapter: SQLiteAdapter) -> None:
        """트랜잭션 커밋"""
        async with adapter.transaction():
            assert adapter.in_transaction is True
            await adapter.execute("INSERT INTO items (value) VALUES ('x')")
            await adapter.execute("INSERT INTO items (value) VALUES ('y')")

        assert adapter.in_transaction is False
        rows = await adapter.fetchall("SELECT id FROM items")
        assert len(rows) == 2

    @pytest.mark.asyncio
    async def test_transaction_rollback(self, adapter: SQLiteAdapter) -> None:
        """예외 시 롤백"""
        with pytest.raises(ValueError):
            async with adapter.transaction():
                await adapter.execute("INSERT INTO items (value) VALUES ('x')")
                raise ValueError("의도적 에러")

        rows = await adapter.fetchall("SELECT id FROM items")
        assert rows == []
        assert adapter.in_transaction is False

    @pytest.mark.asyncio
    async def test_nested_transaction_rejected(self, adapter: SQLiteAdapter) -> None:
        async with adapter.transaction():
            with pytest.raises(RuntimeError, match="Nested"):
                async with adapter.transaction():
                    pass

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back(self, adapter: SQLiteAdapter) -> None:
        """트랜잭션 도중 Task 취소 → 롤백, 어댑터 재사용 가능"""
        inserted = asyncio.Event()

        async def writer() -> None:
            async with adapter.transaction():
                await adapter.execute("INSERT INTO items (value) VALUES ('cancelled')")
                inserted.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(writer())
        await inserted.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await adapter.fetchall("SELECT id FROM items") == []

        async with adapter.transaction():
            await adapter.execute("INSERT INTO items (value) VALUES ('after')")
        assert len(await adapter.fetchall("SELECT id FROM items")) == 1

    @pytest.mark.asyncio
    async def test_other_task_waits_for_transaction(self, adapter: SQLiteAdapter) -> None:
        """다른 Task의 조회는 트랜잭션 종료 후 실행 (미커밋 데이터를 보지 않음)"""
        started = asyncio.Event()
        release = asyncio.Event()

        async def writer() -> None:
            async with adapter.transaction():
                await adapter.execute("INSERT INTO items (value) VALUES ('w')")
                started.set()
                await release.wait()

        task = asyncio.create_task(writer())
        await started.wait()

        reader = asyncio.create_task(adapter.fetchall("SELECT value FROM items"))
        await asyncio.sleep(0.05)
        assert not reader.done()

        release.set()
        await task
        assert [r[0] for r in await reader] == ["w"]

    @pytest.mark.asyncio
    async def test_second_connection_gets_busy_error(self, tmp_path: Path) -> None:
        """다른 연결이 쓰기 락을 쥐고 있으면 busy_timeout 후 locked 오류"""
        db_path = tmp_path / "shared.db"
        async with SQLiteAdapter(db_path) as first, SQLiteAdapter(
            db_path, busy_timeout_ms=100
        ) as second:
            await first.execute("CREATE TABLE t (id INTEGER)")

            async with first.transaction():
                await first.execute("INSERT INTO t VALUES (1)")

                with pytest.raises(sqlite3.OperationalError) as exc_info:
                    async with second.transaction():
                        pass

            assert is_busy_error(exc_info.value)
            assert second.in_transaction is False

    @pytest.mark.asyncio
    async def test_cancel_during_begin_leaves_no_open_transaction(
        self, tmp_path: Path
    ) -> None:
        """BEGIN IMMEDIATE 대기 중 취소 → 락이 풀린 뒤 롤백, 다음 트랜잭션 정상"""
        db_path = tmp_path / "shared.db"
        async with SQLiteAdapter(db_path) as first, SQLiteAdapter(db_path) as second:
            await first.execute("CREATE TABLE t (id INTEGER)")
            entered = asyncio.Event()

            async def write_second() -> None:
                async with second.transaction():
                    entered.set()
                    await second.execute("INSERT INTO t VALUES (2)")

            async with first.transaction():
                task = asyncio.create_task(write_second())
                await asyncio.sleep(0.1)
                task.cancel()
                await first.execute("INSERT INTO t VALUES (1)")

            with pytest.raises(asyncio.CancelledError):
                await task

            assert not entered.is_set()
            assert second._conn.in_transaction is False

            async with second.transaction():
                await second.execute("INSERT INTO t VALUES (3)")

            rows = await first.fetchall("SELECT id FROM t ORDER BY id")
            assert [r[0] for r in rows] == [1, 3]

    @pytest.mark.asyncio
    async def test_readonly(self, tmp_path: Path) -> None:
        """읽기 전용 연결은 쓰기 불가"""
        db_path = tmp_path / "ro.db"
        async with SQLiteAdapter(db_path) as writer:
            await writer.execute("CREATE TABLE t (id INTEGER)")
            await writer.execute("INSERT INTO t VALUES (1)")

        async with SQLiteAdapter(db_path, readonly=True) as reader:
            assert (await reader.fetchone("SELECT COUNT(*) FROM t"))[0] == 1
            with pytest.raises(sqlite3.OperationalError):
                await reader.execute("INSERT INTO t VALUES (2)")

    @pytest.mark.asyncio
    async def test_table_info(self, adapter: SQLiteAdapter) -> None:
        assert await adapter.table_exists("items") is True
        assert await adapter.table_exists("nonexistent") is False

        info = await adapter.get_table_info("items")
        assert [c["name"] for c in info] == ["id", "value"]
        assert info[0]["pk"] is True

    @pytest.mark.asyncio
    async def test_context_manager(self, tmp_path: Path) -> None:
        async with SQLiteAdapter(tmp_path / "ctx.db") as adapter:
            assert adapter.is_connected is True

        assert adapter.is_connected is False
