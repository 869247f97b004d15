from prospector.worker.main import main

main()
