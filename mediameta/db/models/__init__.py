from .mixins import Base
from .template import Template
from .category import Category
from .image import Image
from .stored_object import StoredObject
