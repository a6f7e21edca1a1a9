"""
Scheduling Domain

Appointments, availability blocks and the clinic agenda.

Structure:
- schemas.py               # Request/response models
- repository.py            # Appointment, block and patient queries
- time_calculator.py       # Overlap predicate, agenda policy, slot generation
- availability_service.py  # Conflict checks and open portal slots
- appointment_service.py   # Create / reschedule / cancel / confirm presence
- manual_action_service.py # Professional acts on behalf of a patient
- block_service.py         # Availability blocks
- router.py                # /appointments endpoints

No two active (AGENDADO/CONFIRMADO) appointments of one professional may
overlap. Services pre-check availability, but the storage overlap constraint
on ``appointments`` is what guarantees it under concurrent writes.
"""
