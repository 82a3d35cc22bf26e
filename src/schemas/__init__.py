# src/schemas/__init__.py
from .base_schemas import *
from .patient_schemas import *
from .provider_schemas import *
from .identity_schemas import *
from .health_record_schemas import *
from .share_request_schemas import *
from .response_schemas import *
