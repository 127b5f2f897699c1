"""Pure domain layer: values, intervals, validation, DTOs, clock."""
