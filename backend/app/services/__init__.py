"""
Services Layer

Reservation engine logic that:
- Accepts a Session plus domain inputs (ids, members)
- Returns domain results and pending notices
- Raises ReservationError subclasses for caller-visible rejections
- Never touches HTTP request/response objects
"""
