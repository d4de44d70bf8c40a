"""Start the REST service on an embedded uvicorn server.

    python main.py --port 8080 --shared.version=3.2.5
"""
from cia.application import main

if __name__ == "__main__":
    main()
