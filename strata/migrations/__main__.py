from strata.migrations.cli import main

main()
