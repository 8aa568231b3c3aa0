from trackservice.server import main


main()
