"""
Cowrite - shared working documents co-edited with an AI master agent
Main entry point for the application
"""
from dotenv import load_dotenv

# Load environment variables from .env file (for development)
load_dotenv()

from cowrite.server.main import main  # noqa: E402


if __name__ == "__main__":
    main()
