"""Pure domain layer: context, clock, enums, DTOs and workflows. No I/O."""
