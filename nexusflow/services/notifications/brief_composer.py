import enum
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from nexusflow.db.models import Board
from nexusflow.schemas.notification_schemas import NotificationPayload
from nexusflow.services.notifications.composer import format_time
from nexusflow.services.scheduling.cycle_resolver import resolve_cycle
from nexusflow.utils.datetime_utils import to_utc
from nexusflow.utils.logging import get_logger

logger = get_logger()

DEFAULT_BRIEF_URL = "/dashboard"
MAX_LISTED_TASKS = 10


class BriefKind(str, enum.Enum):
    MORNING = "morning"
    EVENING = "evening"
    TEST_NOTIFICATION = "test_notification"
    WEEKLY = "weekly"


class BriefTask(BaseModel):
    title: str
    time: Optional[str] = None
    is_priority: bool = False


class BriefStats(BaseModel):
    pending: int = 0
    completed: int = 0
    overdue: int = 0
    priority: int = 0
    pending_tasks: List[BriefTask] = Field(default_factory=list)

    @property
    def total_today(self) -> int:
        return self.pending + self.completed


class WeeklyStats(BaseModel):
    created: int = 0
    completed: int = 0
    overdue: int = 0
    completed_titles: List[str] = Field(default_factory=list)
    overdue_titles: List[str] = Field(default_factory=list)


def _is_overdue(task) -> bool:
    return task.current_board == Board.OVERDUE and not task.is_completed


def _pending_sort_key(task: BriefTask):
    # priority first, then by time, untimed tasks last
    return (not task.is_priority, task.time is None, format_time(task.time or ""), task.title)


def collect_brief_stats(tasks: Iterable, now_local: datetime) -> BriefStats:
    """
    Aggregate the daily brief counters across a user's candidate tasks.

    Tasks due today are split into pending/completed by their cycle state.
    Overdue counts every unfinished task on the overdue board, whatever its
    due date.
    """
    stats = BriefStats()
    for task in tasks:
        if _is_overdue(task):
            stats.overdue += 1

        try:
            cycle_state = resolve_cycle(task, now_local)
        except Exception as e:
            logger.warning(f"Skipping task {task.id} in brief: {str(e)}")
            continue

        if not cycle_state.due_today:
            continue

        if cycle_state.satisfied_for_cycle:
            stats.completed += 1
            continue

        stats.pending += 1
        if task.is_priority:
            stats.priority += 1
        stats.pending_tasks.append(
            BriefTask(title=task.title, time=task.time, is_priority=bool(task.is_priority))
        )

    stats.pending_tasks.sort(key=_pending_sort_key)
    return stats


def collect_weekly_stats(tasks: Iterable, now_local: datetime) -> WeeklyStats:
    """Counters for the seven days ending at `now_local`."""
    window_start = to_utc(now_local) - timedelta(days=7)
    stats = WeeklyStats()

    for task in tasks:
        if task.created_at is not None and to_utc(task.created_at) >= window_start:
            stats.created += 1

        finished_at = task.completed_at or task.last_successful_completion_date
        if finished_at is not None and to_utc(finished_at) >= window_start:
            stats.completed += 1
            stats.completed_titles.append(task.title)

        if _is_overdue(task):
            stats.overdue += 1
            stats.overdue_titles.append(task.title)

    return stats


def _task_lines(tasks: List[BriefTask]) -> List[str]:
    lines = []
    for task in tasks[:MAX_LISTED_TASKS]:
        marker = "🔥 " if task.is_priority else ""
        suffix = f" às {format_time(task.time)}" if task.time else ""
        lines.append(f"• {marker}{task.title}{suffix}")
    if len(tasks) > MAX_LISTED_TASKS:
        lines.append(f"... e mais {len(tasks) - MAX_LISTED_TASKS}")
    return lines


def _counter_lines(stats: BriefStats) -> List[str]:
    return [
        f"📋 Tarefas de hoje: {stats.total_today}",
        f"⏳ Pendentes: {stats.pending}",
        f"✅ Concluídas: {stats.completed}",
        f"🔥 Prioritárias: {stats.priority}",
        f"⚠️ Atrasadas: {stats.overdue}",
    ]


def compose_brief(
    kind: BriefKind, stats: Optional[BriefStats] = None, url: str = DEFAULT_BRIEF_URL
) -> NotificationPayload:
    """Render a morning, evening or test brief."""
    if kind == BriefKind.TEST_NOTIFICATION:
        return NotificationPayload(
            title="Notificação de Teste",
            body="Esta é uma notificação de teste enviada com sucesso!",
            url=url,
        )

    stats = stats or BriefStats()

    if kind == BriefKind.MORNING:
        lines = ["☀️ *Seu Brief da Manhã*", ""] + _counter_lines(stats)
        if stats.pending_tasks:
            lines += ["", "🎯 *Foco do Dia:*"] + _task_lines(stats.pending_tasks)
        lines += ["", "Tenha um dia produtivo!"]
        return NotificationPayload(
            title="Seu Brief da Manhã", body="\n".join(lines), url=url
        )

    if kind == BriefKind.EVENING:
        lines = ["🌙 *Seu Resumo da Noite*", ""] + _counter_lines(stats)
        if stats.pending_tasks:
            lines += ["", "📌 *Ainda pendentes:*"] + _task_lines(stats.pending_tasks)
        else:
            lines += ["", "_Tudo concluído hoje. Excelente trabalho!_"]
        lines += ["", "Descanse bem!"]
        return NotificationPayload(
            title="Seu Resumo da Noite", body="\n".join(lines), url=url
        )

    raise ValueError(f"Use compose_weekly_brief for {kind.value}")


def compose_weekly_brief(
    stats: WeeklyStats, url: str = DEFAULT_BRIEF_URL
) -> NotificationPayload:
    lines = [
        "📅 *Seu Resumo Semanal*",
        "",
        f"🆕 Tarefas criadas: {stats.created}",
        f"✅ Tarefas concluídas: {stats.completed}",
        f"⚠️ Tarefas atrasadas: {stats.overdue}",
    ]
    if stats.overdue_titles:
        lines += ["", "*Atrasadas:*"] + [
            f"• {title}" for title in stats.overdue_titles[:MAX_LISTED_TASKS]
        ]
    lines += ["", "Boa semana!"]
    return NotificationPayload(title="Seu Resumo Semanal", body="\n".join(lines), url=url)
