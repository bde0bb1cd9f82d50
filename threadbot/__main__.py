"""python -m threadbot"""

from threadbot.cli.commands import app

if __name__ == "__main__":
    app()
