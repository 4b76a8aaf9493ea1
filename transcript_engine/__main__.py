import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Launch the service under uvicorn."""
  host = os.getenv("TRANSCRIPTS_HOST", "127.0.0.1")
  port = os.getenv("TRANSCRIPTS_PORT", "3000")
  logger.info("Starting transcript service on %s:%s", host, port)
  # Replace the current process so uvicorn receives SIGTERM directly.
  args = ["uvicorn", "transcript_engine.main:app", "--host", host, "--port", port, "--no-server-header"]
  os.execvp("uvicorn", args)


if __name__ == "__main__":
  main()
