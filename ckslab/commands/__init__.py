from . import create, destroy, status

__all__ = ['create', 'destroy', 'status']
