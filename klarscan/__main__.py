from klarscan.cli import app

app()
