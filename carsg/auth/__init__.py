"""JWT tokens and the FastAPI dependencies that enforce them."""
