from edge_deploy.utils.decorators import log_execution_time, log_operation, retry

__all__ = ["log_execution_time", "log_operation", "retry"]
