import pytest

from coworker.conversation.task_context import TaskContext


@pytest.fixture
def task_context() -> TaskContext:
    return TaskContext(
        title="Draft proposal",
        description="Write the Q3 pricing proposal for the leadership review",
    )
