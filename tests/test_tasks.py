from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import CategoryType, TaskPriority, TaskStatus, User
from schemas import CategoryIn, TaskIn, TaskUpdate
from services import CategoryService, TaskService


def test_task_lifecycle_and_stats() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = User(email="ada@example.com", name="Ada", password_hash="x")
        session.add(user)
        session.commit()

        work = CategoryService(session, user.id).create(
            CategoryIn(name="Work", type=CategoryType.task)
        )
        tasks = TaskService(session, user.id)
        report = tasks.create(
            TaskIn(title="Write report", category_id=work.id, duration_planned=90)
        )
        tasks.create(TaskIn(title="Call bank", priority=TaskPriority.high))
        assert report.status == TaskStatus.pending

        report = tasks.update(report.id, TaskUpdate(duration_spent=45))
        assert report.duration_spent == 45
        assert report.duration_planned == 90

        done = tasks.complete(report.id)
        assert done.status == TaskStatus.completed

        stats = tasks.stats()
        assert stats.total_tasks == 2
        assert stats.completed_tasks == 1
        assert stats.pending_tasks == 1
        assert stats.completion_rate == 50.0
        assert [t.title for t in tasks.list_all(TaskStatus.completed)] == ["Write report"]
