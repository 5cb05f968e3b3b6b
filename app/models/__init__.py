from app.db.base_class import Base
from app.models.tenant import Tenant
