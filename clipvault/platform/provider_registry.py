from fastapi import Request
from clipvault.core.config import Settings, settings as default_settings
from clipvault.platform.ports.content_store import ContentStorePort
from clipvault.platform.adapters.store_local import LocalContentStore
from clipvault.platform.adapters.store_s3 import S3ContentStore

class ProviderRegistry:
    """Builds adapters from settings. Callers own the lifecycle of what they get back."""

    @staticmethod
    def content_store(settings: Settings | None = None) -> ContentStorePort:
        settings = settings or default_settings
        if settings.CONTENT_STORE_PROVIDER == "s3":
            return S3ContentStore(bucket=settings.S3_BUCKET, prefix=settings.S3_PREFIX, chunk_size=settings.STREAM_CHUNK_SIZE)
        return LocalContentStore(settings.LOCAL_STORAGE_ROOT, chunk_size=settings.STREAM_CHUNK_SIZE)

registry = ProviderRegistry()

def get_content_store(request: Request) -> ContentStorePort:
    store = getattr(request.app.state, "content_store", None)
    if store is None:
        raise RuntimeError("content store not initialised; app startup did not run")
    return store
