"""Live workflow and claim arbitration for campus laundry and lost-and-found."""
