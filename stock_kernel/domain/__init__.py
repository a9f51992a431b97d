"""Pure domain layer: clock, policy enums, DTOs and request validation."""
