"""
Shared Kernel

Base classes and infrastructure shared by the salon domains: domain events,
time-slot value objects, the unit of work and the in-process message bus.
"""
