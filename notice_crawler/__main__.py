from notice_crawler.cli import cli

cli()
