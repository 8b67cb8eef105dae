"""Identity domain exports."""

from .models import Skill, User  # noqa: F401
from .service import ProfileNotFound, ProfileService, SkillNotFound  # noqa: F401
