from .template_service import TemplateService, TemplateNotFound, TemplateInUse
from .category_service import CategoryService, CategoryNotFound, CategoryInUse
from .image_service import (
    ImageService, ImageNotFound, PendingUpload, UploadTooLarge, UnsupportedMediaType, MAX_UPLOAD_BYTES,
)
