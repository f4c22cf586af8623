from .user import User
from .profile import UserProfile
from .metrics_snapshot import MetricsSnapshot
from .acknowledgment import Acknowledgment
from .plan import Plan


__all__ = ["User", "UserProfile", "MetricsSnapshot", "Acknowledgment", "Plan"]
