"""Services package for review scheduling and study sessions."""
