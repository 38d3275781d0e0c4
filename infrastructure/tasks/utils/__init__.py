"""Utility helpers for Celery tasks."""
from .dispatcher import TaskDispatcher
from .base_task import BaseTask, run_with_uow

__all__ = ["TaskDispatcher", "BaseTask", "run_with_uow"]
