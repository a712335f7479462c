"""Account Service: registro, autenticación y gestión de usuarios."""
