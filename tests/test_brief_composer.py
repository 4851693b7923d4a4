from datetime import date

import pytest

from nexusflow.db.models import Board, RecurrenceType
from nexusflow.services.notifications.brief_composer import (
    BriefKind,
    BriefStats,
    WeeklyStats,
    collect_brief_stats,
    collect_weekly_stats,
    compose_brief,
    compose_weekly_brief,
)

from tests.factories import SCENARIO_DAY, local_time, make_task_stub, naive_utc


class TestBriefStats:
    """Counters aggregated for the daily briefs."""

    def test_overdue_counted_regardless_of_due_date(self):
        tasks = [
            make_task_stub(
                title="Antiga", current_board=Board.OVERDUE, due_date=date(2024, 5, 1)
            ),
            make_task_stub(title="Sem data", current_board=Board.OVERDUE, due_date=None),
            make_task_stub(
                title="Já feita",
                current_board=Board.OVERDUE,
                is_completed=True,
                due_date=date(2024, 5, 2),
            ),
        ]
        stats = collect_brief_stats(tasks, local_time(7))

        assert stats.overdue == 2

    def test_pending_and_completed_follow_cycle_state(self):
        tasks = [
            make_task_stub(title="Hoje", due_date=SCENARIO_DAY, time="10:00"),
            make_task_stub(title="Feita", due_date=SCENARIO_DAY, is_completed=True),
            make_task_stub(
                title="Diária feita",
                recurrence_type=RecurrenceType.DAILY,
                last_successful_completion_date=naive_utc(local_time(6)),
            ),
            make_task_stub(
                title="Semanal de quarta",
                recurrence_type=RecurrenceType.WEEKLY,
                recurrence_details="Wednesday",
            ),
            make_task_stub(title="Amanhã", due_date=date(2024, 6, 11)),
        ]
        stats = collect_brief_stats(tasks, local_time(7))

        assert stats.pending == 1
        assert stats.completed == 2
        assert stats.total_today == 3
        assert [task.title for task in stats.pending_tasks] == ["Hoje"]

    def test_pending_tasks_sorted_priority_first_then_time(self):
        tasks = [
            make_task_stub(title="Tarde", due_date=SCENARIO_DAY, time="15:00"),
            make_task_stub(title="Sem hora", due_date=SCENARIO_DAY),
            make_task_stub(title="Manhã", due_date=SCENARIO_DAY, time="08:00"),
            make_task_stub(
                title="Prioridade", due_date=SCENARIO_DAY, time="18:00", is_priority=True
            ),
        ]
        stats = collect_brief_stats(tasks, local_time(7))

        assert [task.title for task in stats.pending_tasks] == [
            "Prioridade",
            "Manhã",
            "Tarde",
            "Sem hora",
        ]
        assert stats.priority == 1

    def test_weekly_stats_window(self):
        tasks = [
            make_task_stub(title="Nova", created_at=naive_utc(local_time(9, day=date(2024, 6, 8)))),
            make_task_stub(title="Velha", created_at=naive_utc(local_time(9, day=date(2024, 5, 1)))),
            make_task_stub(
                title="Concluída",
                created_at=naive_utc(local_time(9, day=date(2024, 5, 1))),
                completed_at=naive_utc(local_time(9, day=date(2024, 6, 9))),
            ),
            make_task_stub(title="Atrasada", current_board=Board.OVERDUE),
        ]
        stats = collect_weekly_stats(tasks, local_time(18))

        assert stats.created == 1
        assert stats.completed == 1
        assert stats.completed_titles == ["Concluída"]
        assert stats.overdue == 1
        assert stats.overdue_titles == ["Atrasada"]


class TestComposeBrief:
    """Rendering of the brief payloads."""

    def test_morning_brief(self):
        stats = BriefStats(pending=2, completed=1, overdue=3, priority=1)
        payload = compose_brief(BriefKind.MORNING, stats)

        assert payload.title == "Seu Brief da Manhã"
        assert payload.url == "/dashboard"
        assert "📋 Tarefas de hoje: 3" in payload.body
        assert "⚠️ Atrasadas: 3" in payload.body

    def test_evening_brief_without_pending_tasks(self):
        payload = compose_brief(BriefKind.EVENING, BriefStats(completed=4))

        assert payload.title == "Seu Resumo da Noite"
        assert "Tudo concluído hoje" in payload.body

    def test_test_notification(self):
        payload = compose_brief(BriefKind.TEST_NOTIFICATION)

        assert payload.title == "Notificação de Teste"
        assert payload.body

    def test_weekly_kind_needs_weekly_composer(self):
        with pytest.raises(ValueError):
            compose_brief(BriefKind.WEEKLY, BriefStats())

    def test_weekly_brief(self):
        payload = compose_weekly_brief(
            WeeklyStats(created=5, completed=3, overdue=1, overdue_titles=["Atrasada"])
        )

        assert payload.title == "Seu Resumo Semanal"
        assert "🆕 Tarefas criadas: 5" in payload.body
        assert "• Atrasada" in payload.body
