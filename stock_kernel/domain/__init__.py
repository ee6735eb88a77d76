"""Pure domain layer: numeric boundary, clock, enums and DTOs."""
