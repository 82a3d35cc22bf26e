from typing import Optional
from .base_schemas import BaseSchema
from .patient_schemas import PatientPublic
from .provider_schemas import ProviderPublic


class IdentityPublic(BaseSchema):
    """What the caller principal resolves to"""

    principal: str
    kind: str  # patient, provider, unregistered
    patient: Optional[PatientPublic] = None
    provider: Optional[ProviderPublic] = None
