from groupledger import create_app
app = create_app()
if __name__ == "__main__":
    print("\n" + "="*50)
    print("STARTING GROUP LEDGER ON ALL INTERFACES (0.0.0.0)")
    print("This is required for mobile devices to connect.")
    print("="*50 + "\n")
    app.run(host='0.0.0.0', port=5001, debug=True)
