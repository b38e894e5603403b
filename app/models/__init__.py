from app.db.base_class import Base
from app.models.business import Business
