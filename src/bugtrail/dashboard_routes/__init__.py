"""APIRouter factories for the dashboard app."""
