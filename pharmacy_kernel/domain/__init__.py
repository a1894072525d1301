"""Pure domain layer: clock, DTOs, FEFO planning, alert classification, id format."""
