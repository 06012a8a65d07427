from .template_repo import TemplateRepo
from .category_repo import CategoryRepo
from .image_repo import ImageRepo
from .object_repo import StoredObjectRepo
