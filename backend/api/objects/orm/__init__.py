from api.objects.orm.object_model import ObjectModel

__all__ = ["ObjectModel"]
