from importlib import import_module

modules = [
    'users',
    'catalog',
    'bookings',
    'admin_bookings',
    'samples',
    'modifications',
    'documents',
    'notifications',
    'audit',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
