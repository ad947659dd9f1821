"""Bus ticket booking backend: seat reservation, payment reconciliation and pending-booking expiry."""
