from typing import Dict, Optional

from nexusflow.db.models import NoteType, RecurrenceType
from nexusflow.schemas.notification_schemas import NotificationPayload
from nexusflow.services.notifications.markup import bold, escape_markdown, italic
from nexusflow.services.scheduling.cycle_resolver import CycleState
from nexusflow.services.scheduling.daily_target import DailyTarget
from nexusflow.services.scheduling.recurrence import Weekday, parse_monthly_details
from nexusflow.services.scheduling.triggers import Trigger, TriggerKind
from nexusflow.utils.datetime_utils import parse_time_of_day

DEFAULT_TASK_URL = "/tasks"
DEFAULT_NOTE_URL = "/notes"
NOTE_PREVIEW_LENGTH = 100

WEEKDAY_LABELS_PT: Dict[Weekday, str] = {
    Weekday.SUNDAY: "Dom",
    Weekday.MONDAY: "Seg",
    Weekday.TUESDAY: "Ter",
    Weekday.WEDNESDAY: "Qua",
    Weekday.THURSDAY: "Qui",
    Weekday.FRIDAY: "Sex",
    Weekday.SATURDAY: "Sáb",
}

TRIGGER_LABELS: Dict[TriggerKind, str] = {
    TriggerKind.PRE_DUE_15M: "15 minutos antes",
    TriggerKind.AT_DUE: "na hora",
    TriggerKind.POST_DUE_60M: "1 hora depois",
}


def format_time(value: str) -> str:
    parsed = parse_time_of_day(value)
    return parsed.strftime("%H:%M") if parsed else value


def recurrence_summary(task) -> str:
    """Human-readable recurrence, e.g. "Semanalmente nos dias Seg, Qua"."""
    recurrence_type = task.recurrence_type
    if recurrence_type == RecurrenceType.DAILY:
        return "Diariamente"

    if recurrence_type == RecurrenceType.WEEKLY:
        labels = []
        for raw_name in (task.recurrence_details or "").split(","):
            weekday = Weekday.from_name(raw_name)
            if weekday is not None:
                labels.append(WEEKDAY_LABELS_PT[weekday])
            elif raw_name.strip():
                labels.append(raw_name.strip())
        return f"Semanalmente nos dias {', '.join(labels)}"

    if recurrence_type == RecurrenceType.MONTHLY:
        day_of_month = parse_monthly_details(task.recurrence_details)
        return f"Mensalmente no dia {day_of_month or task.recurrence_details}"

    return ""


def compose(
    task,
    trigger: Trigger,
    cycle_state: CycleState,
    url: str = DEFAULT_TASK_URL,
    daily_target: Optional[DailyTarget] = None,
) -> NotificationPayload:
    """
    Build the reminder for one fired trigger of `task`.

    The body is Telegram MarkdownV2 with user text escaped; channels without
    Markdown support render it through `strip_markup`.
    """
    if trigger.kind == TriggerKind.POST_DUE_60M:
        title = f"Tarefa Pendente: {task.title}"
        header = f"⚠️ Tarefa Pendente ({TRIGGER_LABELS[trigger.kind]}):"
    else:
        title = f"Lembrete: {task.title}"
        header = f"⏰ Lembrete de Tarefa ({TRIGGER_LABELS[trigger.kind]}):"

    lines = [escape_markdown(header), "", bold(task.title)]
    if task.is_priority:
        lines.append(f"🔥 {bold('Prioridade')}")
    if task.description:
        lines.append(italic(task.description))
    if task.time:
        lines.append(escape_markdown(f"Às {format_time(task.time)}"))

    if task.recurrence_type != RecurrenceType.NONE:
        lines.append(escape_markdown(f"(Recorrente: {recurrence_summary(task)})"))
    elif task.due_date:
        lines.append(escape_markdown(f"Em {task.due_date.strftime('%d/%m/%Y')}"))

    if daily_target is not None:
        target_text = f"{daily_target.value} {daily_target.unit}".strip()
        lines.append(f"{bold('Meta de Hoje:')} {escape_markdown(target_text)}")

    if trigger.kind == TriggerKind.POST_DUE_60M and cycle_state.cycle_start is not None:
        lines.append(escape_markdown("Ainda não concluída neste ciclo."))

    return NotificationPayload(title=title, body="\n".join(lines), url=url)


def note_preview(note) -> str:
    """Checklist progress, or the start of the note's text."""
    content = note.content
    if note.type == NoteType.CHECKLIST and isinstance(content, list):
        completed = sum(1 for item in content if isinstance(item, dict) and item.get("completed"))
        return f"Checklist: {completed}/{len(content)} itens concluídos."

    text = "" if content is None else str(content)
    if len(text) > NOTE_PREVIEW_LENGTH:
        return text[:NOTE_PREVIEW_LENGTH] + "..."
    return text


def compose_note_reminder(note, url: str = DEFAULT_NOTE_URL) -> NotificationPayload:
    return NotificationPayload(
        title=f"Lembrete: {note.title or 'Sua Nota'}",
        body=escape_markdown(note_preview(note)),
        url=url,
    )
