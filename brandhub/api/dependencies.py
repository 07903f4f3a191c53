"""
Shared FastAPI dependencies
"""
from brandhub.core.http_client import AutomationRunnerClient, get_runner_client


def get_automation_client() -> AutomationRunnerClient:
    """Runner client for request-scoped dispatches; overridden in tests"""
    return get_runner_client()
