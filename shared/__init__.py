"""
Shared Kernel

Value objects, domain events, the unit of work and the in-process
message bus used by every domain app.
"""
