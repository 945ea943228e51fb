"""
日次リマインダーのスケジューラ

毎日決まった現地時刻（既定 20:00）に、評価サービスの check_and_send_reminders() を1回呼ぶ。

方針:
- スケジューラはモジュール変数ではなくハンドル（ReminderScheduler）で持つ。
  起動配線（main.py）が1つだけ生成し、app.state 経由で参照する。
- start() は二重起動しない（ALREADY_RUNNING を返すだけ）。
- stop() は start() が作ったタイマータスクそのものを cancel する。
  ただし実行中の評価（発火済み）は最後まで走らせる。
- 定期発火の例外はログと FiringOutcome に残し、タイマーは止めない。
- 手動実行（trigger_manually）の例外は呼び出し側へそのまま伝播する。
- 発火同士の直列化はしない（1日周期なので重ならない前提）。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from monly.config import DEFAULT_REMINDER_TIMEZONE


logger = logging.getLogger(__name__)


class ScheduleStartResult(str, Enum):
    """start() の結果。"""

    SCHEDULED = "scheduled"
    ALREADY_RUNNING = "already_running"


class ScheduleStopResult(str, Enum):
    """stop() の結果。"""

    STOPPED = "stopped"
    NOT_RUNNING = "not_running"


class ReminderEvaluator(Protocol):
    """評価サービス。ユーザーごとに送る/送らないを決めて送信まで行う。"""

    def check_and_send_reminders(self) -> Any:
        ...


@dataclass(frozen=True)
class DailySchedule:
    """毎日 hour:minute（timezone の現地時刻）に発火する設定。"""

    hour: int = 20
    minute: int = 0
    timezone: str = DEFAULT_REMINDER_TIMEZONE

    def __post_init__(self) -> None:
        if self.hour < 0 or self.hour > 23:
            raise ValueError("hour must be in 0..23")
        if self.minute < 0 or self.minute > 59:
            raise ValueError("minute must be in 0..59")
        # 不正なタイムゾーン名はここで弾く
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {self.timezone!r}") from exc

    @property
    def zone(self) -> ZoneInfo:
        """発火時刻のタイムゾーン。"""
        return ZoneInfo(self.timezone)

    def describe(self) -> str:
        """ログ用の表記（例: "20:00 Asia/Jakarta"）。"""
        return f"{self.hour:02d}:{self.minute:02d} {self.timezone}"


def compute_next_fire_time(after: datetime, schedule: DailySchedule) -> datetime:
    """
    after より厳密に後の、最初の発火時刻を返す。

    Args:
        after: 基準時刻（タイムゾーン付き）。
        schedule: 日次発火の設定。

    Returns:
        schedule.zone の現地時刻で表した次回発火時刻。
    """

    if after.tzinfo is None:
        raise ValueError("after must be timezone-aware")

    tz = schedule.zone
    local_after = after.astimezone(tz)
    fire_time = time(schedule.hour, schedule.minute)

    # --- 今日の発火時刻を過ぎていれば翌日 ---
    candidate = datetime.combine(local_after.date(), fire_time, tzinfo=tz)
    if candidate.timestamp() <= local_after.timestamp():
        candidate = datetime.combine(local_after.date() + timedelta(days=1), fire_time, tzinfo=tz)
    return candidate


@dataclass(frozen=True)
class FiringOutcome:
    """1回の発火の結果（例外は error に文字列で残す）。"""

    reason: str  # scheduled / initial
    started_at: datetime
    finished_at: datetime
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SchedulerSnapshot:
    """スケジューラ状態の読み取り専用スナップショット。"""

    armed: bool
    fire_time: str  # "HH:MM"
    timezone: str
    next_fire_at: Optional[datetime]
    firing_count: int
    in_flight: int
    last_outcome: Optional[FiringOutcome]


class ReminderScheduler:
    """
    日次リマインダーのスケジューラ（ハンドル）。

    start()/stop() はイベントループ上（async 関数内）から呼ぶ。
    評価サービスは同期関数として呼ばれ、asyncio.to_thread で実行される。
    """

    def __init__(
        self,
        evaluator: ReminderEvaluator,
        schedule: DailySchedule,
        *,
        initial_check_delay_seconds: Optional[float] = None,
        now_func: Optional[Callable[[], datetime]] = None,
        sleep_func: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._evaluator = evaluator
        self._schedule = schedule
        self._initial_check_delay_seconds = initial_check_delay_seconds
        self._now_func = now_func or (lambda: datetime.now(tz=schedule.zone))
        self._sleep = sleep_func

        # --- 可変状態 ---
        self._timer_task: Optional[asyncio.Task[None]] = None
        self._initial_task: Optional[asyncio.Task[None]] = None
        self._in_flight: set[asyncio.Task[None]] = set()
        self._next_fire_at: Optional[datetime] = None
        self._firing_count = 0
        self._last_outcome: Optional[FiringOutcome] = None

    @property
    def armed(self) -> bool:
        """タイマーが張られているか。"""
        return self._timer_task is not None

    @property
    def next_fire_at(self) -> Optional[datetime]:
        return self._next_fire_at

    @property
    def last_outcome(self) -> Optional[FiringOutcome]:
        return self._last_outcome

    def start(self) -> ScheduleStartResult:
        """
        日次タイマーを張る。

        既に張られていれば何もせず ALREADY_RUNNING を返す。
        """

        if self._timer_task is not None:
            logger.warning("transaction reminder scheduler is already running")
            return ScheduleStartResult.ALREADY_RUNNING

        # --- 実行中ループが無ければ RuntimeError（同期コードからは呼べない） ---
        loop = asyncio.get_running_loop()
        self._timer_task = loop.create_task(self._run_timer(), name="reminder_scheduler_timer")
        self._timer_task.add_done_callback(self._on_timer_done)

        # --- 開発モード: 起動直後に1回だけ確認する（日次タイマーとは独立） ---
        if self._initial_check_delay_seconds is not None:
            logger.info(
                "development mode: initial reminder check in %.1fs",
                float(self._initial_check_delay_seconds),
            )
            self._initial_task = loop.create_task(
                self._run_initial_check(float(self._initial_check_delay_seconds)),
                name="reminder_scheduler_initial_check",
            )

        logger.info("transaction reminder scheduler started: daily at %s", self._schedule.describe())
        return ScheduleStartResult.SCHEDULED

    def stop(self) -> ScheduleStopResult:
        """
        タイマーを解除する。

        まだ発火していない分だけが止まる。実行中の評価は最後まで走る。
        """

        if self._timer_task is None:
            logger.warning("transaction reminder scheduler is not running")
            return ScheduleStopResult.NOT_RUNNING

        # --- start() が作ったタスクそのものを cancel する ---
        self._timer_task.cancel()
        self._timer_task = None
        if self._initial_task is not None:
            self._initial_task.cancel()
            self._initial_task = None
        self._next_fire_at = None

        logger.info("transaction reminder scheduler stopped")
        return ScheduleStopResult.STOPPED

    async def shutdown(self, *, timeout_seconds: Optional[float] = None) -> None:
        """
        停止して、実行中の評価の終了を待つ（プロセス終了時用）。
        """

        tasks = [t for t in (self._timer_task, self._initial_task) if t is not None]
        if self.armed:
            self.stop()
        tasks.extend(self._in_flight)
        if not tasks:
            return

        # --- 待つだけで cancel はしない ---
        _, still_running = await asyncio.wait(tasks, timeout=timeout_seconds)
        if still_running:
            logger.warning(
                "%d in-flight reminder check(s) did not finish within %.1fs",
                len(still_running),
                float(timeout_seconds or 0),
            )

    async def trigger_manually(self) -> Any:
        """
        評価をタイマー外で1回実行する（運用/テスト用）。

        例外は握りつぶさず呼び出し側へ伝播する。
        """

        logger.info("manually triggering transaction reminders")
        try:
            result = await asyncio.to_thread(self._evaluator.check_and_send_reminders)
        except Exception as exc:
            logger.error("manual transaction reminders failed: %s", str(exc), exc_info=exc)
            raise
        logger.info("manual transaction reminders completed")
        return result

    def snapshot(self) -> SchedulerSnapshot:
        """現在の状態を返す。"""

        return SchedulerSnapshot(
            armed=self.armed,
            fire_time=f"{self._schedule.hour:02d}:{self._schedule.minute:02d}",
            timezone=self._schedule.timezone,
            next_fire_at=self._next_fire_at,
            firing_count=self._firing_count,
            in_flight=len(self._in_flight),
            last_outcome=self._last_outcome,
        )

    async def _run_timer(self) -> None:
        """次回発火時刻まで待って発火、を繰り返す。"""

        reference = self._now_func()
        while True:
            fire_at = compute_next_fire_time(reference, self._schedule)
            self._next_fire_at = fire_at

            delay = (fire_at - self._now_func()).total_seconds()
            await self._sleep(max(0.0, delay))

            self._spawn_firing("scheduled")

            # --- 早起きしても同じ発火時刻を二度使わない ---
            now = self._now_func()
            reference = now if now > fire_at else fire_at

    async def _run_initial_check(self, delay_seconds: float) -> None:
        """delay_seconds 後に1回だけ発火する。"""

        await self._sleep(delay_seconds)
        self._initial_task = None
        self._spawn_firing("initial")

    def _spawn_firing(self, reason: str) -> None:
        """評価を別タスクで開始する（stop() で cancel されないように分ける）。"""

        task = asyncio.get_running_loop().create_task(self._fire(reason), name=f"reminder_firing_{reason}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _fire(self, reason: str) -> None:
        """1回分の評価。例外はログと FiringOutcome に残し、外へは出さない。"""

        started_at = self._now_func()
        self._firing_count += 1
        logger.info("running daily transaction reminder check (%s) at %s", reason, started_at.isoformat())

        error: Optional[str] = None
        try:
            await asyncio.to_thread(self._evaluator.check_and_send_reminders)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            error = f"{type(exc).__name__}: {exc}"
            logger.exception("scheduled transaction reminder check failed: %s", str(exc))

        self._last_outcome = FiringOutcome(
            reason=reason,
            started_at=started_at,
            finished_at=self._now_func(),
            error=error,
        )

    def _on_timer_done(self, task: asyncio.Task[None]) -> None:
        """タイマーが cancel 以外で終わった場合に記録する。"""

        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("reminder scheduler timer stopped unexpectedly", exc_info=exc)
            if self._timer_task is task:
                self._timer_task = None
                self._next_fire_at = None
