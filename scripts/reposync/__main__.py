from scripts.reposync.cli import main

main()
