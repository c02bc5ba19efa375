"""WhatsApp lead-capture bot driven by per-tenant decision trees."""
