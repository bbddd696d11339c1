"""Job de retención del histórico de lecturas."""
