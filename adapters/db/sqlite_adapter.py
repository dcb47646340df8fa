"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
여러 업무 모듈(비용, 공급사, 판매, 구매)이 동시에 Ledger에 쓰더라도
트랜잭션 단위로 직렬화되도록 설정.

- autocommit 모드로 연결하고 트랜잭션은 항상 BEGIN IMMEDIATE로 명시적으로 시작
- 같은 어댑터를 공유하는 Task 사이에서는 asyncio.Lock으로 직렬화
- 다른 연결/프로세스 사이에서는 SQLite 쓰기 락 + busy_timeout으로 직렬화
"""

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from core.constants import Defaults

logger = logging.getLogger(__name__)


def is_busy_error(exc: BaseException) -> bool:
    """다른 writer가 락을 쥐고 있어 실패한 경우인지 판별

    busy_timeout 동안 대기한 뒤에도 락을 얻지 못하면
    sqlite3.OperationalError("database is locked")가 발생함.
    """
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
    busy_timeout_ms: int = Defaults.BUSY_TIMEOUT_MS,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부
        busy_timeout_ms: 쓰기 락 대기 시간

    Returns:
        aiosqlite 연결 객체 (autocommit 모드)
    """
    db_path_str = str(db_path)

    # 디렉토리가 없으면 생성
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    # isolation_level=None: 암묵적 BEGIN 비활성화 (트랜잭션은 명시적으로만)
    if readonly:
        conn = await aiosqlite.connect(
            f"file:{db_path_str}?mode=ro", uri=True, isolation_level=None
        )
    else:
        conn = await aiosqlite.connect(db_path_str, isolation_level=None)

    if not readonly:
        await conn.execute("PRAGMA journal_mode=WAL")

    await conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


class SQLiteAdapter:
    """SQLite 어댑터

    Ledger 전체가 공유하는 단일 저장소 핸들.
    트랜잭션 컨텍스트 매니저 제공.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부 (조회 전용 프로세스용)
        busy_timeout_ms: 쓰기 락 대기 시간

    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()

    async with adapter.transaction():
        await adapter.execute("INSERT INTO ...")

    await adapter.close()
    ```
    """

    def __init__(
        self,
        db_path: Path | str,
        readonly: bool = False,
        busy_timeout_ms: int = Defaults.BUSY_TIMEOUT_MS,
    ):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._tx_owner: asyncio.Task | None = None

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        """현재 Task가 트랜잭션을 열고 있는지 여부"""
        return self._tx_owner is not None and self._tx_owner is asyncio.current_task()

    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return

        self._conn = await create_connection(
            self.db_path, self.readonly, self.busy_timeout_ms
        )

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Not connected to database")
        return self._conn

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        """다른 Task의 트랜잭션이 끝날 때까지 대기

        트랜잭션 소유 Task는 그대로 통과.
        """
        if self.in_transaction:
            yield
            return
        async with self._lock:
            yield

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        conn = self._require_conn()
        async with self._guard():
            if parameters:
                return await conn.execute(sql, parameters)
            return await conn.execute(sql)

    async def executescript(self, script: str) -> None:
        """SQL 스크립트 실행 (스키마 생성용)"""
        conn = self._require_conn()
        async with self._guard():
            await conn.executescript(script)

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회"""
        conn = self._require_conn()
        async with self._guard():
            cursor = await conn.execute(sql, parameters or ())
            row = await cursor.fetchone()
            await cursor.close()
            return row

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[tuple[Any, ...]]:
        """전체 행 조회"""
        conn = self._require_conn()
        async with self._guard():
            cursor = await conn.execute(sql, parameters or ())
            rows = list(await cursor.fetchall())
            await cursor.close()
            return rows

    async def _execute_uncancellable(self, conn: aiosqlite.Connection, sql: str) -> None:
        """취소되어도 워커 스레드의 문장이 끝난 뒤에 반환

        aiosqlite는 대기 중인 Task가 취소돼도 문장을 그대로 실행하므로,
        BEGIN/COMMIT 도중 취소되면 결과를 기다린 뒤 열린 트랜잭션을 롤백.
        """

        async def run() -> None:
            await conn.execute(sql)

        task = asyncio.ensure_future(run())
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            try:
                await task
            except sqlite3.Error as e:
                logger.debug(f"Statement failed after cancellation: {e}", extra={"sql": sql})
            if conn.in_transaction:
                await conn.execute("ROLLBACK")
            raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        BEGIN IMMEDIATE로 쓰기 락을 먼저 획득.
        성공 시 자동 커밋, 예외(취소 포함) 시 자동 롤백.
        쓰기 락 대기 중에 취소돼도 연결에 열린 트랜잭션이 남지 않음.

        사용 예시:
        ```python
        async with adapter.transaction():
            await adapter.execute("INSERT INTO ...")
            # 성공 시 자동 커밋
        ```

        Raises:
            RuntimeError: 연결이 없거나 중첩 트랜잭션인 경우
            sqlite3.OperationalError: busy_timeout 내에 쓰기 락을 얻지 못한 경우
        """
        conn = self._require_conn()
        if self.in_transaction:
            raise RuntimeError("Nested transaction is not supported")

        async with self._lock:
            self._tx_owner = asyncio.current_task()
            try:
                await self._execute_uncancellable(conn, "BEGIN IMMEDIATE")
                try:
                    yield conn
                    await self._execute_uncancellable(conn, "COMMIT")
                except BaseException:
                    # 일부 오류는 SQLite가 이미 롤백한 상태
                    if conn.in_transaction:
                        await conn.execute("ROLLBACK")
                    raise
            finally:
                self._tx_owner = None

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    async def get_table_info(self, table_name: str) -> list[dict[str, Any]]:
        """테이블 정보 조회"""
        rows = await self.fetchall(f"PRAGMA table_info({table_name})")

        return [
            {
                "cid": row[0],
                "name": row[1],
                "type": row[2],
                "notnull": bool(row[3]),
                "default_value": row[4],
                "pk": bool(row[5]),
            }
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
