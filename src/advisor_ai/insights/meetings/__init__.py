"""Meeting analytics and planning built on normalized meeting communications."""
