from slidelens.cli import app

app()
