"""Core generation workflow for AIVenger.

This package holds everything below the HTTP layer:

- **config.py**: Pydantic Settings configuration (``AIVENGER_*`` variables)
- **models.py**: Generation record, identity, and workflow result types
- **auth.py**: Credential gate (session token verification)
- **database.py**: SQLite schema and connection helpers
- **ledger.py**: Credit balances with atomic conditional deduction
- **records.py**: Generation record store
- **storage.py**: Artifact store for uploaded and generated images
- **catalogs.py** / **prompt_synthesizer.py**: Randomized prompt construction
- **provider.py**: External image-generation client
- **orchestrator.py**: The generation workflow tying it all together

Usage Example
-------------
::

    from aivenger.core import GenerationOrchestrator, ImageGenerationClient
    from aivenger.core.config import config

    provider = ImageGenerationClient(config.provider_settings())
    orchestrator = GenerationOrchestrator(ledger, records, storage, provider)
    result = orchestrator.generate(image_bytes, "image/jpeg", identity, "me.jpg")
    if result.success:
        print(result.generation.generated_image_url, result.remaining_credits)
    else:
        print(result.code, result.error)
"""

from aivenger.core.ledger import CreditLedger
from aivenger.core.models import (
    ErrorCode,
    GenerateFailure,
    GenerateResult,
    GenerateSuccess,
    Generation,
    GenerationStatus,
    Identity,
)
from aivenger.core.orchestrator import GenerationOrchestrator
from aivenger.core.provider import ImageGenerationClient
from aivenger.core.records import GenerationStore
from aivenger.core.storage import LocalArtifactStore

__all__ = [
    "CreditLedger",
    "ErrorCode",
    "GenerateFailure",
    "GenerateResult",
    "GenerateSuccess",
    "Generation",
    "GenerationOrchestrator",
    "GenerationStatus",
    "GenerationStore",
    "Identity",
    "ImageGenerationClient",
    "LocalArtifactStore",
]
