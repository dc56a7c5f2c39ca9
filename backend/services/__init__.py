"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP layer.

Modules:
    - negotiation: Booking state machine, fare negotiation and trip lifecycle
    - matching: Nearby open bookings and active/history lookups
"""
