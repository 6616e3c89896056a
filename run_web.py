#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Launch the tunetransfer web API."""

import os


def main():
    # Load environment variables
    from dotenv import load_dotenv
    load_dotenv()

    if not os.environ.get('TUNETRANSFER_DB_PATH'):
        print("TUNETRANSFER_DB_PATH not set, storing sessions in data/sessions.db")
        print()

    # Start the server
    import uvicorn
    uvicorn.run(
        "web.main:app",
        host=os.environ.get('TUNETRANSFER_HOST', '127.0.0.1'),
        port=int(os.environ.get('TUNETRANSFER_PORT', '8000')),
        reload=True
    )


if __name__ == "__main__":
    main()
