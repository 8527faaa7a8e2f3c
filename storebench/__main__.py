from storebench.cli import app

app(prog_name="storebench")
