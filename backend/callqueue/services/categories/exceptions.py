"""Category domain exceptions."""

from callqueue.services.exceptions import NotFoundError, ValidationError


class CategoryNotFound(NotFoundError):
    """Category not found."""

    pass


class CategoryInactive(ValidationError):
    """Category is disabled and does not accept new tickets."""

    pass


class CategoryCodeTaken(ValidationError):
    """Another category already uses this code."""

    pass
