from deploy_orchestrator.cli import cli

cli()
