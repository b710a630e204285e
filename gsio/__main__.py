from gsio.cli import main

main()
