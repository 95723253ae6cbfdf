from dbqa.cli.app import app

app()
