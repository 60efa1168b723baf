class DashboardException(Exception):
    """Base exception for all dashboard-related errors."""
    pass

class RepositoryNotFoundException(DashboardException):
    """Raised when no registered repository matches the requested id."""
    def __init__(self, repository_id: str, message: str = "Repository not found"):
        self.repository_id = repository_id
        super().__init__(message)

class UpstreamFailureException(DashboardException):
    """Raised when GitHub or GitLab could not be queried or returned an unusable body."""
    def __init__(self, repository_id: str, message: str):
        self.repository_id = repository_id
        super().__init__(message)
