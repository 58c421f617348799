"""
Screen recorder entry point.
"""
import sys
from recorder_app import RecorderApp


def main():
    """Main entry point for the screen recorder."""
    app = RecorderApp()
    return app.run()


if __name__ == "__main__":
    sys.exit(main())
