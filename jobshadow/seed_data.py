import structlog

from .models.opportunity_model import LearningAreaCreate
from .models.user_model import OrganisationCreate
from .storage.base import Storage

log = structlog.get_logger(__name__)

ORGANISATIONS = [
    {"name": "SEEK", "short_code": "SEEK"},
    {"name": "REA Group", "short_code": "REA"},
    {"name": "Carsales", "short_code": "CARS"},
    {"name": "Xero", "short_code": "XERO"},
    {"name": "Culture Amp", "short_code": "CAMP"},
    {"name": "MYOB", "short_code": "MYOB"},
    {"name": "Australia Post", "short_code": "APOST"},
]

LEARNING_AREAS = [
    "Regulatory Compliance",
    "Agile at Scale",
    "Innovation",
    "Sales Leadership",
    "Content Development",
    "HR Team Structure",
    "Engineering Practices",
    "Product Management",
    "UX Research",
    "Data Science",
]


async def seed_reference_data(storage: Storage) -> dict:
    """Insert the organisations and learning areas that are missing."""
    existing_orgs = {org.name for org in await storage.list_organisations()}
    existing_areas = {area.name for area in await storage.list_learning_areas()}

    added = {"organisations": 0, "learning_areas": 0}
    for org in ORGANISATIONS:
        if org["name"] not in existing_orgs:
            await storage.create_organisation(OrganisationCreate(**org))
            added["organisations"] += 1
    for name in LEARNING_AREAS:
        if name not in existing_areas:
            await storage.create_learning_area(LearningAreaCreate(name=name))
            added["learning_areas"] += 1

    log.info("reference_data_seeded", **added)
    return added
