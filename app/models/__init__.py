from app.db.base_class import Base
from app.models.profile import Profile
from app.models.custom_domain import CustomDomain, DomainStatus
