"""Pure domain types of the dairy ERP core: roles, clock, transition tables, audit records."""
